"""Booking domain - Drivers booking MOT and retest slots"""
