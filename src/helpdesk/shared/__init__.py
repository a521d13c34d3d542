"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context (logging, HTTP
middleware). Do not add triage business logic here.
"""
