"""Salon appointment booking service"""
