"""
Advance Modules.

Thin orchestration over the Advance Kernel and Engines.  Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas (policy and settings)
- Persistence adapters and a service facade

Modules:
- Advances: cash advance request, approval, disbursement, retirement, settlement
"""
