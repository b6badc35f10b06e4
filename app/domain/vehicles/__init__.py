"""Vehicles domain - Driver vehicles, DVLA/DVSA lookups and garage search"""
