"""Biometric attendance verification engine.

Quality gating, descriptor matching, encrypted template storage, attendance
window evaluation and WiFi/GPS location validation, composed by
:class:`verification.orchestrator.VerificationService`.
"""
