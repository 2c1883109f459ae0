"""Prometheus metrics for the application"""
from prometheus_client import Counter, Gauge, REGISTRY

# Campaign dispatch metrics
try:
    campaigns_dispatched_counter = Counter(
        'newsdesk_campaigns_dispatched_total',
        'Total number of campaign dispatch runs by final status',
        ['status']
    )
except ValueError:
    campaigns_dispatched_counter = REGISTRY._names_to_collectors.get('newsdesk_campaigns_dispatched_total')

try:
    recipient_sends_counter = Counter(
        'newsdesk_recipient_sends_total',
        'Total number of per-recipient send attempts by outcome',
        ['status']
    )
except ValueError:
    recipient_sends_counter = REGISTRY._names_to_collectors.get('newsdesk_recipient_sends_total')

try:
    dispatch_aborted_counter = Counter(
        'newsdesk_dispatch_aborted_total',
        'Dispatch runs aborted before the audience was resolved'
    )
except ValueError:
    dispatch_aborted_counter = REGISTRY._names_to_collectors.get('newsdesk_dispatch_aborted_total')

try:
    campaigns_in_flight_gauge = Gauge(
        'newsdesk_campaigns_in_flight',
        'Number of campaigns currently being dispatched by this worker'
    )
except ValueError:
    campaigns_in_flight_gauge = REGISTRY._names_to_collectors.get('newsdesk_campaigns_in_flight')

# Publication trigger metrics
try:
    publication_triggers_counter = Counter(
        'newsdesk_publication_triggers_total',
        'Automatic newsletter triggers on content publication by outcome',
        ['outcome']
    )
except ValueError:
    publication_triggers_counter = REGISTRY._names_to_collectors.get('newsdesk_publication_triggers_total')

# Scheduler metrics
try:
    scheduler_runs_counter = Counter(
        'newsdesk_scheduler_runs_total',
        'Total number of scheduler job runs',
        ['status']
    )
except ValueError:
    scheduler_runs_counter = REGISTRY._names_to_collectors.get('newsdesk_scheduler_runs_total')
