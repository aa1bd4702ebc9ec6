"""
                OONA Table Ordering

Customer-facing menu, cart and table checkout plus a staff dashboard
and menu management, backed by a hosted backend-as-a-service with
realtime order notifications.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
