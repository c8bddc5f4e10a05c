"""
Meridian Weather Lab - Core pipeline (clock, alignment, quality control, accuracy)
"""
