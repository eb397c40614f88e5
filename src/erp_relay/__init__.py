"""
erp-relay - a simulated ERP and an exactly-once extractor for it

The simulator replays years of purchasing and inventory history and keeps
generating events in accelerated time; the extractor lands every purchase
order and inventory readout exactly once, over webhook push and watermark
pull at the same time.

Fun fact: Real ERP integrations fail in exactly the ways simulated here -
missed webhooks, flaky APIs, and the same record showing up twice!
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
