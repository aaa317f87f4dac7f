"""Booking domain - Scheduling, editing and assigning cleaning jobs"""
