"""
Knowledge Upload - chunked document upload and progress reconciliation

Domain-Driven Design layers:
- Domain: Upload task state machine, chunk planning, validation
- Application: Upload orchestration, batch control, progress reconciliation
- Infrastructure: HTTP storage backend and file payload adapters
- Presentation: API controllers for driving upload batches
"""

__version__ = "1.0.0"
