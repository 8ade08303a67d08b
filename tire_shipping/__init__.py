"""
Tire Shop Shipping

Multi-carrier shipping orchestration: rate quotes with fallback,
shipment creation, tracking and address validation.
"""
__version__ = "1.0.0"
