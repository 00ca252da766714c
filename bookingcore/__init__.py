"""Multi-tenant booking scheduling engine"""
