"""auth/ -- Authentication and authorization package for Gatehouse.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, actions/, or messages/.
api/, web/ and actions/ import from auth/, not the other way around.
"""
