"""
Metrics Engine - Candidate Metric Names.

Priority-ordered pattern lists per component field. Earlier entries
win; see resolver.py for the matching rules.
"""

# Generator
GENERATOR_SERVICE = "imc-telematics-gen"
GENERATOR_SENT_PATTERNS = ["telematics_messages_sent_total"]
GENERATOR_RATE_PATTERNS = ["telematics_messages_rate"]

# Processor (summed over every instance)
PROCESSOR_SERVICE = "imc-telemetry-processor"
PROCESSOR_MESSAGES_PATTERNS = ["telemetry_messages_total"]
PROCESSOR_EVENTS_PATTERNS = ["telemetry_vehicle_events_total"]
PROCESSOR_INVALID_PATTERNS = ["telemetry_invalid_messages_total"]

# JDBC sink
JDBC_SINK_SERVICE = "imc-jdbc-consumer"

ROWS_INSERTED_PATTERNS = [
    "jdbc_consumer_messages_processed_total",
    "rabbitmq_consumed_total",
    "jdbc_sink_rows_inserted_total",
    "spring_data_repository_invocations_total",
    "sink_records_sent_total",
    "sink_records_processed_total",
    "spring_integration_sends_total",
    "spring_integration_receives_total",
    "application_processed_total",
    "application_records_total",
    "kafka_consumer_records_consumed_total",
    "micrometer_counter_total",
    "jvm_threads_peak",
    "process_uptime_seconds",
]

DATABASE_ERROR_PATTERNS = [
    "jdbc_sink_errors_total",
    "jdbc_connections_failed_total",
    "sink_records_failed_total",
    "spring_integration_errors_total",
    "application_errors_total",
    "spring_data_repository_exceptions_total",
    "hikaricp_connections_timeout_total",
    "hikaricp_connections_failed_total",
    "logback_events_total",
    "jvm_gc_pause_seconds",
]

JDBC_PROCESSED_COUNTER = "jdbc_consumer_messages_processed_total"
RABBIT_CONSUMED_COUNTER = "rabbitmq_consumed_total"
