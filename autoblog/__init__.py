"""Automated long-form article generator.

Package structure:
    autoblog/config.py        – paths, API keys, model settings, thresholds, static tables
    autoblog/models.py        – article, topic, job-state and report records
    autoblog/providers/       – provider fallback invoker, cool-down store, HTTP/SDK backends
    autoblog/loaders/         – trending topics and research aggregation
    autoblog/pipeline/        – dedup, draft, optimize, link management, thumbnails, orchestrator
    autoblog/validation/      – article checks, grading, and report formatting
    autoblog/storage.py       – article store and job-state store
    autoblog/notify.py        – run reports and operator alerts
    autoblog/scheduler.py     – daily scheduling pass
    autoblog/titles.py        – title sanitizing
"""
