"""
Teams Roster Provisioning

This package creates Microsoft Teams and adds their owners and members from a
CSV roster, verifying each user against Microsoft Entra ID first.
"""

__version__ = "1.0.0"
__author__ = "Teams Roster Provisioning Team"
