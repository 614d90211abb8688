"""accounts/ -- Persistence for self-registered DoRegister accounts.

Layer rule: accounts/ imports only core/, stdlib, and third-party libraries.
auth/ and api/ import from accounts/, not the other way around.
"""
