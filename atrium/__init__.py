"""atrium - per-project local preview file server

Serves a project directory on localhost to an embedding host application,
behind a per-instance secret, a session cookie and same-instance referer trust.
"""

__version__ = "1.0.0"
