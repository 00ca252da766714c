"""Reminders domain - Reminder configuration and the periodic reminder scheduler"""
