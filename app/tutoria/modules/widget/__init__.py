"""
Widget endpoints.

Called by embedded chat widgets that hold a capability token instead of a
user session. No principal is involved.
"""
