"""Coupon Role Restriction service package."""
