"""
Email templates module.

- Every template belongs to exactly one team and is only reachable through that team
- Names are unique per team; content is free-form text/HTML
- Create, edit and delete are recorded to the append-only audit trail
"""
