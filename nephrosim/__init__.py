"""
nephrosim - CKD progression and clinical state transition engine.
"""
__version__ = "1.0.0"
