"""
# Example 1 - Square patch array on a thin substrate

This example computes the transmission and reflection of a periodic array of
square conducting patches printed on a thin dielectric substrate, swept in
frequency at normal and oblique incidence. The same stack is then loaded from
a JSON-style dictionary, and the archived results are post-processed into
polarization-resolved outputs.
"""

import numpy as np
import tempfile
from pathlib import Path

from torchfss import Layer, ResultArchive, extract_result_file, parse_outputs, rectangular_patch
from torchfss.solver import get_solver_builder
from torchfss.observers import ConsoleProgressObserver

# lattice vectors of the square cell, in mm
s1 = [10.0, 0.0]
s2 = [0.0, 10.0]

# patch size and mesh density
lx, ly = 7.0, 7.0
nx, ny = 7, 7

patch = rectangular_patch(s1, s2, lx=lx, ly=ly, nx=nx, ny=ny)

freqs = np.linspace(10.0, 20.0, 11)
steering = {'phi': 0.0, 'theta': [0.0, 30.0]}

run_dir = Path(tempfile.mkdtemp()) / "patch_array"

dev1 = (get_solver_builder()
        .with_layer(Layer())
        .with_sheet(patch)
        .with_layer(Layer(width=0.5, epsr=2.2, tandel=0.0009))
        .with_layer(Layer())
        .with_frequencies(freqs)
        .with_steering(steering)
        .with_dbmin(30)
        .with_max_workers(2)
        .with_archive(run_dir)
        .build())

dev1.add_observer(ConsoleProgressObserver(verbose=False))
results = dev1.analyze()

outfuns = parse_outputs("theta fghz s21db(te,te) s11db(te,te) s21db(h,h) s21db(v,v)")
table = extract_result_file(run_dir, outfuns)

print("\n" + "  ".join(f"{o.label:>12}" for o in outfuns))
for row in table:
    print("  ".join(f"{v:>12.4f}" for v in row))

# resonance of the patch array: strongest reflection at normal incidence
normal = table[table[:, 0] == 0.0]
f_res = normal[np.argmin(normal[:, 2]), 1]
print(f"\nTransmission minimum at normal incidence: {f_res:.1f} GHz")

# the same stack from a configuration dictionary, solved at the resonance only
config = {
    "units": "mm",
    "frequencies": [float(f_res)],
    "steering": {"phi": 0.0, "theta": 0.0},
    "layers": [
        {"type": "layer"},
        {"type": "sheet", "element": "patch", "s1": s1, "s2": s2,
         "lx": lx, "ly": ly, "nx": nx, "ny": ny},
        {"type": "layer", "width": 0.5, "epsr": 2.2, "tandel": 0.0009},
        {"type": "layer"},
    ],
}
dev2 = get_solver_builder().from_config(config).build()
result = dev2.analyze()[0]
print(f"S21 (TE) from configuration: {abs(result.gsm.S21[0, 0].item()):.4f}")
print(f"Archived points: {len(ResultArchive(run_dir))}")
