"""events/ -- Event records and their persistence.

Layer rule: events/ does not import from api/ or auth/.
"""
