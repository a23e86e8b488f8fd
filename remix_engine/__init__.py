"""
Audio remix engine: capture metering, trimming, effects, multi-track mixing and WAV encoding.
"""
