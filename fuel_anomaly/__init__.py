"""
fuel-anomaly-detector — Source package.

Modules:
    models          — Telemetry, anomaly, risk and investigation types
    data_generator  — Config loading, fleet registry, phased telemetry generator
    detector        — Five-rule fuel anomaly detection engine
    scorer          — Daily and contextual risk scoring strategies
    confidence      — Daily / period confidence and data-quality grading
    aggregator      — Day annotation, period summary, investigation priority
    similarity      — Sister-vessel similarity and suggestions
    financial       — Financial impact of excess fuel
    pipeline        — Per-vessel and fleet orchestration
"""
