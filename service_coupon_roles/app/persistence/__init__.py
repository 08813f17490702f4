"""Coupon metadata storage and the restriction settings adapter."""
