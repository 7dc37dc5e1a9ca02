"""
passvault: password-manager backend.

Google sign-in establishes a server-side session; every password entry
operation is scoped by the session's user id.
"""
