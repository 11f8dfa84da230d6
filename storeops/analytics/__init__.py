"""
Customer analytics: RFM scoring, lifecycle segmentation, cohort retention,
purchase frequency, product affinity and order timing.

The engine lives in `storeops.analytics.engine`; the analyzers are plain
functions over the records in `storeops.analytics.records`.
"""
