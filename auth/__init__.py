"""auth/ -- Credentials, validation, and session lifecycle for DoRegister.

Layer rule: auth/ imports from core/, accounts/, stdlib and third-party
libraries. It does NOT import from api/ or uploads/.
api/ imports from auth/, not the other way around.
"""
