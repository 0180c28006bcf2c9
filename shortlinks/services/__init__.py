"""
Link shortener services.

- link_registry: link lifecycle (create, lookup, owner edits, counters)
- resolution_service: handle -> destination behind expiry and password gates
- visit_recorder: first-visit decision and visit events, best effort
- analytics_service: per-link reports and owner dashboards
- shortcode, fingerprint, client_meta: pure helpers used by the above
"""
