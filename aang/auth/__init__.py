"""
Auth System

Token issuance and rotation, per-device session bookkeeping, and the
AuthPin secondary factor. Every protected operation runs the request gate
in ``services.pre_check`` first.
"""
