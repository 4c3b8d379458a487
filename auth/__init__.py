"""auth/ -- Authentication and authorization package for Vaultroom.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, vaults/, realtime/, or storage/.
api/ and realtime/ import from auth/, not the other way around.
"""
