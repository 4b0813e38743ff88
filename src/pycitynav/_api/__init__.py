"""Network fetchers for the third-party map services.

Each module exposes plain async functions taking a
:class:`~pycitynav._transport.Transport` and the client config, plus the
pure parsing helpers they use. They are internal to pycitynav and may
change at any time.
"""
