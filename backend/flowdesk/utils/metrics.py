# /flowdesk/utils/metrics.py

from prometheus_client import Counter, Histogram, Gauge

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Flow Metrics
flow_requests_counter = Counter('flow_requests_total', 'Flow requests handled', ['action', 'screen', 'status'])
hours_updates_counter = Counter('machine_hours_updates_total', 'Working-hours update attempts', ['status'])
active_sessions_gauge = Gauge('flow_active_sessions', 'Number of live flow sessions after the last sweep')

# Security Metrics
decryption_failures_counter = Counter('flow_decryption_failures_total', 'Flow envelopes that failed to decrypt')

# Performance Metrics
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
