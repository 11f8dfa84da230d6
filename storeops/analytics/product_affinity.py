"""
Product Affinity (Market Basket) Analysis

Three views on which products go together:

1. Frequently bought together: product pairs that share an order, scored by
   support, confidence and lift.
2. Cross-sell opportunities: the most popular products within each lifecycle
   segment.
3. Category preferences: each segment's share of line items per category.

Products are counted once per order no matter how many line items reference
them. Line items without a product id are ignored.
"""

from collections import Counter, defaultdict
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from mlxtend.frequent_patterns import apriori
from mlxtend.preprocessing import TransactionEncoder

from storeops.analytics.records import Customer, Order, Product
from storeops.analytics.schemas import (
    CategoryPreference,
    CategoryShare,
    CrossSellOpportunity,
    ProductAffinityData,
    ProductPair,
    ProductRecommendation,
)

MIN_PAIR_COUNT = 2
TOP_PAIRS = 10
TOP_RECOMMENDATIONS = 5
TOP_CATEGORIES = 5

CategoryFunction = Callable[[Product], Optional[str]]


def first_word_category(product: Product) -> Optional[str]:
    """Default category: the first word of the product name."""
    if not product.name:
        return None
    return product.name.split(" ")[0]


def _product_name(names: Mapping[int, str], product_id: int) -> str:
    return names.get(product_id) or f"Product {product_id}"


# ==================== Frequently Bought Together ====================

def basket_frame(orders: Sequence[Order]) -> pd.DataFrame:
    """One-hot order x product frame; a product is True at most once per order."""
    baskets = [order.product_ids for order in orders]
    if not any(baskets):
        return pd.DataFrame()
    encoder = TransactionEncoder()
    onehot = encoder.fit(baskets).transform(baskets)
    return pd.DataFrame(onehot, columns=encoder.columns_)


def count_cooccurrences(orders: Sequence[Order], min_count: int = 1) -> Tuple[Dict[int, int], Dict[Tuple[int, int], int]]:
    """
    Count per-order product occurrences and unordered pair co-occurrences.

    Frequent single products and pairs are mined with apriori (itemsets of
    size 1 and 2) and supports converted back to order counts. Itemsets seen
    in fewer than `min_count` orders are left out.

    Returns:
        (product id -> orders containing it,
         (smaller id, larger id) -> orders containing both)
    """
    total_orders = len(orders)
    frame = basket_frame(orders)
    if frame.empty or min_count > total_orders:
        return {}, {}

    # Slightly below min_count / total so float division never drops a boundary itemset
    min_support = (max(min_count, 1) - 0.5) / total_orders
    itemsets = apriori(frame, min_support=min_support, max_len=2, use_colnames=True)

    product_counts: Dict[int, int] = {}
    pair_counts: Dict[Tuple[int, int], int] = {}
    for itemset, support in zip(itemsets["itemsets"], itemsets["support"]):
        count = int(round(support * total_orders))
        ids = sorted(int(product_id) for product_id in itemset)
        if len(ids) == 1:
            product_counts[ids[0]] = count
        else:
            pair_counts[(ids[0], ids[1])] = count

    return product_counts, pair_counts


def frequently_bought_together(orders: Sequence[Order], names: Mapping[int, str]) -> List[ProductPair]:
    total_orders = len(orders)
    product_counts, pair_counts = count_cooccurrences(orders, min_count=MIN_PAIR_COUNT)

    pairs = []
    for (first, second), count in sorted(pair_counts.items()):
        support = count / total_orders
        support_first = product_counts.get(first, 0) / total_orders
        support_second = product_counts.get(second, 0) / total_orders

        # Report the stronger rule direction
        confidence = max(
            count / product_counts[first] if product_counts.get(first) else 0.0,
            count / product_counts[second] if product_counts.get(second) else 0.0,
        )
        if support_first > 0 and support_second > 0:
            lift = support / (support_first * support_second)
        else:
            lift = 0.0

        pairs.append(ProductPair(
            product1_id=first,
            product1_name=_product_name(names, first),
            product2_id=second,
            product2_name=_product_name(names, second),
            cooccurrence_count=count,
            support_percentage=round(support * 100, 1),
            confidence_percentage=round(confidence * 100, 1),
            lift_score=round(lift, 2),
        ))

    # sorted() is stable, so equal lifts stay in product id order
    return sorted(pairs, key=lambda pair: pair.lift_score, reverse=True)[:TOP_PAIRS]


# ==================== Per-Segment Views ====================

def orders_by_segment(orders: Sequence[Order], customers: Sequence[Customer]) -> Dict[str, List[Order]]:
    """Group orders by the current segment of the customer who placed them."""
    segment_of = {customer.id: customer.customer_segment for customer in customers}
    grouped: Dict[str, List[Order]] = defaultdict(list)
    for order in orders:
        segment = segment_of.get(order.customer_id) if order.customer_id is not None else None
        if segment:
            grouped[segment].append(order)
    return grouped


def cross_sell_opportunities(grouped: Mapping[str, List[Order]], names: Mapping[int, str]) -> List[CrossSellOpportunity]:
    opportunities = []
    for segment, segment_orders in grouped.items():
        containing: Counter = Counter()
        for order in segment_orders:
            containing.update(order.product_ids)

        if not containing:
            continue

        # Counter.most_common keeps first-seen order for ties
        recommendations = [
            ProductRecommendation(
                product_id=product_id,
                product_name=_product_name(names, product_id),
                recommendation_score=round(count / len(segment_orders) * 100, 1),
            )
            for product_id, count in containing.most_common(TOP_RECOMMENDATIONS)
        ]
        opportunities.append(CrossSellOpportunity(segment=segment, recommendations=recommendations))

    return opportunities


def category_preferences(
    grouped: Mapping[str, List[Order]],
    products: Sequence[Product],
    category_of: CategoryFunction = first_word_category,
) -> List[CategoryPreference]:
    product_category: Dict[int, str] = {}
    category_ids: Dict[str, int] = {}
    for product in products:
        category = category_of(product)
        if not category:
            continue
        category_ids.setdefault(category, len(category_ids) + 1)
        product_category[product.id] = category

    preferences = []
    for segment, segment_orders in grouped.items():
        counts: Counter = Counter()
        for order in segment_orders:
            for item in order.line_items:
                category = product_category.get(item.product_id)
                if category:
                    counts[category] += 1

        total_items = sum(counts.values())
        if not total_items:
            continue

        shares = [
            CategoryShare(
                category_id=category_ids[category],
                category_name=category,
                percentage=round(count / total_items * 100, 1),
            )
            for category, count in counts.most_common(TOP_CATEGORIES)
        ]
        preferences.append(CategoryPreference(segment=segment, categories=shares))

    return preferences


def analyze_product_affinity(
    orders: Sequence[Order],
    products: Sequence[Product],
    customers: Sequence[Customer],
    category_of: CategoryFunction = first_word_category,
) -> ProductAffinityData:
    """
    Market basket analysis over `orders`.

    Args:
        orders: Orders with normalised line items.
        products: Catalogue, used for names and categories.
        customers: Customers whose current segment groups the per-segment views.
        category_of: Maps a product to its category name (None to skip it).
    """
    if not orders or not products:
        return ProductAffinityData()

    names = {product.id: product.name for product in products if product.name}
    grouped = orders_by_segment(orders, customers)

    return ProductAffinityData(
        frequently_bought_together=frequently_bought_together(orders, names),
        cross_sell_opportunities=cross_sell_opportunities(grouped, names),
        category_preferences=category_preferences(grouped, products, category_of),
    )
