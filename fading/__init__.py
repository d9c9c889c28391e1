"""
Multipath fading channel simulator.
"""
