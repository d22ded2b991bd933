"""
                Table-side QR Ordering System

Backend for QR-code table ordering: customers order from their table,
kitchen and waiter staff move line items through the kitchen lifecycle,
and billing settles the order through a hosted checkout.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
