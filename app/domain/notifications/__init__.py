"""Notifications domain - In-app notifications with Redis push fan-out"""
