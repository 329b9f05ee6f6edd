"""
                Canteen Management API

Backend for multi-canteen ordering: menus with live stock, a bounded order
queue, per-canteen payment gateways and payment QR codes, feedback and
Excel order reports.
"""

__version__ = "1.0.0"
