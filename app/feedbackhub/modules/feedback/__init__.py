"""
Feedback module.

- Feedback records exchanged between a giver and a receiver, optionally team-scoped
- One policy (policy.py) decides view/edit/delete/comment; handlers never re-derive it
- APPROVED and ARCHIVED feedbacks are locked against edits
- Every field change appends an immutable history entry in the same transaction
"""
