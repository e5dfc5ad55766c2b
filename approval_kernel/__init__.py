"""
Approval Kernel

Multi-level sign-off for governed actions (maintenance work orders):
- Per-role authority limits
- Rule-based evaluation of required approval levels
- Ordered approval chains
- Approve/reject state machine with compare-and-swap resolution
"""

__version__ = "0.1.0"
