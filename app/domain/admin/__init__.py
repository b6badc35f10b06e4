"""Admin domain - Platform management"""
