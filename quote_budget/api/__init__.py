"""
HTTP API of the Quote Budget Engine.
"""
