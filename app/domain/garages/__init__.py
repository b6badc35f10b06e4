"""Garages domain - The garage dashboard"""
