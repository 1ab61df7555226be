"""
VoiceText Pro - text to speech with subscriptions, notifications and admin tools
"""

__version__ = '1.0.0'
