from .kyb_note import KYBNoteAgent, coerce_risk_assessment, BAND_ACTIONS, TRIGGER_ACTIONS

__all__ = ["KYBNoteAgent", "coerce_risk_assessment", "BAND_ACTIONS", "TRIGGER_ACTIONS"]
