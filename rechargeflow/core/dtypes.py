"""Type definitions for recharge-flow.

The host backend computes in double precision. The device backend uses
single precision, which is what most GPU targets execute fastest; results
agree with the host to ~1e-4 relative for the daily bucket recurrence.
"""

import numpy as np
import taichi as ti

# Floating-point types per backend
HOST_DTYPE = ti.f64
DEVICE_DTYPE = ti.f32

# Category indices (1-based) stored on the device
INDEX_DTYPE = ti.i32

# NumPy counterparts used when staging buffers
NP_HOST_DTYPE = np.float64
NP_DEVICE_DTYPE = np.float32
NP_INDEX_DTYPE = np.int32
