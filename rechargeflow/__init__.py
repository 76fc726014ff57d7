"""
recharge-flow: gridded daily soil-water balance on CPU or GPU using Taichi.

A bucket model run independently for every active cell of a land-use/soil
grid, aggregated into (year, month) periods with a mass-balance audit.
"""

__version__ = "0.1.0"
