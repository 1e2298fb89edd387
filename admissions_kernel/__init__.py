"""
Admissions Kernel - workflow engine for application processing.

A configurable state machine that moves applications through admissions
stages with:
- Activation-time graph validation
- Permission- and requirement-gated transitions
- Automatic transition propagation
- Append-only status history
- Hash-chained audit trail
"""

__version__ = "0.1.0"
