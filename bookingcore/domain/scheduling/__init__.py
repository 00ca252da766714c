"""Scheduling domain - Slots, booking guard and the token-driven booking lifecycle"""
