"""Domain services for bonus entry, approvals and approver reconciliation."""
