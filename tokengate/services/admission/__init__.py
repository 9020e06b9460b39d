from .engine import AdmissionEngine

__all__ = ["AdmissionEngine"]
