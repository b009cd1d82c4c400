"""Repository layer for the client health-score service.

Module-level async functions taking an AsyncSession:
- clients: get_client, get_agency, get_active_integrations, get_team_phones,
           get_agencies_for_weekday, get_active_client_ids
- signals: get_submissions_since, get_cached_messages, delete_messages_before
- analysis: create_log, find_other_running_log, finish_log,
            insert_health_score, insert_action_items
- alerts: get_unread, create_alert
"""
