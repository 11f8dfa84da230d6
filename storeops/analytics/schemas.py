"""
Customer analytics result models.

Python attributes are snake_case; serialised JSON uses the camelCase names the
dashboard reads (`model_dump(by_alias=True)`).
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Segments & RFM ====================

class SegmentShare(CamelModel):
    name: str
    count: int
    percentage: int
    color: str


class DistributionEntry(CamelModel):
    label: str
    count: int
    percentage: Optional[int] = None
    color: Optional[str] = None


class RFMData(CamelModel):
    rfm_distribution: List[DistributionEntry] = Field(default_factory=list)
    recency_distribution: List[DistributionEntry] = Field(default_factory=list)
    frequency_distribution: List[DistributionEntry] = Field(default_factory=list)
    monetary_distribution: List[DistributionEntry] = Field(default_factory=list)


# ==================== Cohorts ====================

class RetentionPoint(CamelModel):
    month: int  # months since acquisition, 0 = acquisition month
    rate: float
    customers: int
    value: float


class CohortData(CamelModel):
    month: str  # "Jan 2024"
    cohort_key: str  # "2024-01"
    initial_customers: int
    retention_rates: List[RetentionPoint]
    total_value: float
    average_customer_value: float


# ==================== Purchase Frequency ====================

class FrequencyBucket(CamelModel):
    label: str
    count: int
    percentage: int


class SegmentFrequency(CamelModel):
    segment: str
    average_days: float
    next_purchase_prediction: int


class PurchaseFrequencyData(CamelModel):
    days_between_distribution: List[FrequencyBucket] = Field(default_factory=list)
    segment_frequency: List[SegmentFrequency] = Field(default_factory=list)
    average_days_between: float = 0.0
    median_days_between: float = 0.0
    recommended_campaign_days: List[int] = Field(default_factory=list)


# ==================== Product Affinity ====================

class ProductPair(CamelModel):
    product1_id: int
    product1_name: str
    product2_id: int
    product2_name: str
    cooccurrence_count: int
    support_percentage: float
    confidence_percentage: float
    lift_score: float


class ProductRecommendation(CamelModel):
    product_id: int
    product_name: str
    recommendation_score: float


class CrossSellOpportunity(CamelModel):
    segment: str
    recommendations: List[ProductRecommendation]


class CategoryShare(CamelModel):
    category_id: int
    category_name: str
    percentage: float


class CategoryPreference(CamelModel):
    segment: str
    categories: List[CategoryShare]


class ProductAffinityData(CamelModel):
    frequently_bought_together: List[ProductPair] = Field(default_factory=list)
    cross_sell_opportunities: List[CrossSellOpportunity] = Field(default_factory=list)
    category_preferences: List[CategoryPreference] = Field(default_factory=list)


# ==================== Order Timing ====================

class TimingStats(CamelModel):
    count: int
    percentage: int
    revenue: float
    average_order_value: float


class WeekdayBucket(TimingStats):
    day: str


class TimeOfDayBucket(TimingStats):
    time_range: str


class HourlyBucket(TimingStats):
    hour: str


class OrderTimingData(CamelModel):
    weekday_distribution: List[WeekdayBucket] = Field(default_factory=list)
    time_of_day_distribution: List[TimeOfDayBucket] = Field(default_factory=list)
    hourly_distribution: List[HourlyBucket] = Field(default_factory=list)
    best_performing_days: List[WeekdayBucket] = Field(default_factory=list)
    best_performing_hours: List[HourlyBucket] = Field(default_factory=list)
    worst_performing_days: List[WeekdayBucket] = Field(default_factory=list)
    worst_performing_hours: List[HourlyBucket] = Field(default_factory=list)


# ==================== Aggregate ====================

class CustomerSummary(CamelModel):
    id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    total_spent: float
    order_count: int
    average_order_value: float
    customer_segment: Optional[str] = None
    last_order_date: Optional[datetime] = None


class AcquisitionSourceShare(CamelModel):
    source: str
    count: int
    percentage: int


class CustomerAnalyticsData(CamelModel):
    total_customers: int = 0
    new_customers: int = 0
    active_customers: int = 0
    at_risk_customers: int = 0
    lost_customers: int = 0
    customer_segments: List[SegmentShare] = Field(default_factory=list)
    customers_by_segment: Dict[str, List[CustomerSummary]] = Field(default_factory=dict)
    rfm_data: RFMData = Field(default_factory=RFMData)
    average_order_value: float = 0.0
    customer_lifetime_value: float = 0.0
    top_spending_customers: List[CustomerSummary] = Field(default_factory=list)
    most_frequent_customers: List[CustomerSummary] = Field(default_factory=list)
    acquisition_sources: List[AcquisitionSourceShare] = Field(default_factory=list)
    cohort_analysis: List[CohortData] = Field(default_factory=list)
    purchase_frequency: PurchaseFrequencyData = Field(default_factory=PurchaseFrequencyData)
    product_affinity: ProductAffinityData = Field(default_factory=ProductAffinityData)
    order_timing: OrderTimingData = Field(default_factory=OrderTimingData)


# ==================== Operation Responses ====================

class LineItemSummary(CamelModel):
    product_id: Optional[int] = None
    quantity: int
    total: float


class OrderSummary(CamelModel):
    id: int
    customer_id: Optional[int] = None
    date_created: Optional[datetime] = None
    total: float
    line_items: List[LineItemSummary] = Field(default_factory=list)


class RFMCalculationResult(CamelModel):
    customers_scored: int
    rows_written: int
    failed_batches: int
    calculation_date: datetime


class SegmentUpdateSummary(CamelModel):
    updated: int
    unchanged: int
    failed: int


class ZeroOrderFixResult(CamelModel):
    updated: int
