"""auth/ -- Accounts, credentials and account workflows for TicketHub.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
It does NOT import from api/ or events/.
api/ imports from auth/, not the other way around.
"""
