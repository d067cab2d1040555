ARG_DEFAULTS = {
    "max_retries": 5,
    "max_backoff_time": 5 * 60,
    "timeout": 1200,
    "connection_timeout": 20,
    "batch_size": 100,
    "db_insert_batch_size": 100,
}

# Columns added by REDCap to exported records
REDCAP_EVENT_NAME = "redcap_event_name"
COLUMN_REPEATING_INSTRUMENT = "redcap_repeat_instrument"
COLUMN_REPEATING_INSTANCE = "redcap_repeat_instance"
REDCAP_DATA_ACCESS_GROUP = "redcap_data_access_group"
REDCAP_SURVEY_IDENTIFIER = "redcap_survey_identifier"

# Columns added by the ETL to generated tables
COLUMN_EVENT = "redcap_event_name"
COLUMN_SUFFIXES = "redcap_suffix"
COLUMN_DATA_SOURCE = "redcap_data_source"

CHECKBOX_SEPARATOR = "___"
FORM_COMPLETE_SUFFIX = "_complete"