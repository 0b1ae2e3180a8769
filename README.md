# surfelmap

Building blocks for dense surfel-based RGB-D reconstruction, written with
NumPy and SciPy.

## What is inside

- `surfelmap.camera`: process-wide `Intrinsics` (`fx`, `fy`, `cx`, `cy`) and
  `Resolution` (`width`, `height` and the properties `cols`, `rows`,
  `num_pixels`). The first `get_instance()` call fixes the values; `reset()`
  forgets them. Zero focal lengths or a non-positive size raise `ValueError`.
- `surfelmap.uniform`: `Uniform(name, value)` infers its `UniformType`
  (`INT`, `FLOAT`, `VEC2`, `VEC3`, `VEC4`, `MAT4`) from the value;
  `components()` returns the scalars in upload order, matrices column-major.
- `surfelmap.vertex`: the `Surfel` record (position, confidence, colour, init
  time, timestamp, normal, radius) packed as three little-endian float vec4s
  (48 bytes): `Surfel.pack()`, `Surfel.unpack()` and `unpack_many()`.
- `surfelmap.img`: `Img`, a rows x cols NumPy-backed image whose elements may
  be small vectors, with `at(row, col)`, `flat(index)` and item access.
- `surfelmap.odometry`: `rodrigues()` turns an axis-angle vector into a
  rotation matrix; `compute_update_se3()` left-composes a 6-vector twist onto
  an accumulated 4x4 transform and returns it with a float32 copy.
- `surfelmap.gpuconfig`: `GPUConfig.for_device(name)` returns tuned
  `LaunchConfig` (threads, blocks) values for the ICP step, RGB step, RGB
  residual and SO3 step of known devices, and logs a warning and falls back to
  defaults for others.
- `surfelmap.stopwatch`: `Stopwatch` records the latest duration per name in
  milliseconds from `tick()`/`tock()`, `add_timing()` or the `measure()`
  context manager; `format_all()`/`print_all()` list them, and `send_all()`
  sends `serialise_timings()` as a UDP datagram to 127.0.0.1:45454 when more
  than 10 ms have passed since the last send.
- `surfelmap.parse`: command-line option lookup (`find_arg`, `arg_string`,
  `arg_float`, `arg_int`, the numeric ones reading leading digits leniently)
  and `base_dir()`, the executable path cut before its last `build` directory.
- `surfelmap.jacobian`: `OrderedJacobianRow` (entries appended in increasing
  column order, `add_to()` for already weighted entries) and `Jacobian`, with
  `to_sparse()` giving a SciPy CSR matrix.
- `surfelmap.cholesky`: `CholeskyDecomp.solve()` solves the normal equations
  of a `Jacobian`, keeping the ordering found on the first run until
  `free_factor()`.
- `surfelmap.graph`: `GraphNode`, `VertexWeight`, `Constraint`,
  `connect_sequential()`, `closest_time_index()`, `nearest_node_weights()`
  and `sort_weights()`.
- `surfelmap.deformation`: `DeformationGraph`, an embedded deformation graph
  with absolute and relative vertex constraints, Gauss-Newton optimisation
  (`optimise_graph_sparse()` returning an `OptimisationResult`) and
  application to vertices and 4x4 poses.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
import numpy as np
from surfelmap.deformation import DeformationGraph

vertices = [np.array([float(i), 0.0, 0.0]) for i in range(40)]
times = list(range(40))

graph = DeformationGraph(4, vertices)
graph.initialise_graph(vertices[::2], times[::2])
graph.append_vertices(times, len(vertices))

graph.add_constraint(0, np.array([0.0, 0.0, 0.0]))
graph.add_constraint(39, np.array([39.0, 0.5, 0.0]))

result = graph.optimise_graph_sparse(False, 0)
graph.apply_graph_to_vertices()
print(result.optimised, result.error, result.mean_constraint_error)
```

`DeformationGraph` holds the vertex list by reference;
`apply_graph_to_vertices()` writes the deformed positions back into it.

## What it does not do

This package has no rendering, shader or GPU code and no command-line
program. It does not capture or track camera frames: `Uniform`, `Surfel`,
`GPUConfig` and the odometry helpers describe data and settings for such a
pipeline, but nothing here uploads them to a device or runs tracking kernels.