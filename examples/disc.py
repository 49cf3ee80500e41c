from amrscope import Data, RunConfig, subregion, shellregion
from amrscope.utils import setup_logging, get_optimal_worker_count

setup_logging(verbose=True)

# number of processes
config = RunConfig(nproc=get_optimal_worker_count(), verbose=True)

# this is the output directory holding simulation.yml or info_NNNNN.txt
output = "/scratch/ramses/disc_galaxy/output_00300"

data = Data(output, config=config)

# 20 kpc cube around the box center, cells refined up to level 12
gas = data.gethydro(["rho", "vx", "vy", "p"], xrange=10., yrange=10., zrange=10.,
                    center=["bc"], range_unit="kpc", lmax=12, smallr=1e-10)
stars = data.getparticles(["vx", "vy", "mass", "birth"], xrange=10., yrange=10., zrange=10.,
                          center=["bc"], range_unit="kpc")

# thin disc and the ring around it
disc = subregion(gas, "cylinder", radius=8., height=1., center=["bc"], range_unit="kpc", config=config)
ring = shellregion(stars, "cylinder", radius=(3., 8.), height=1., center=["bc"], range_unit="kpc", config=config)

x, y, z = disc.positions("kpc")
rho = disc.column("rho", "nH")
mstar = ring.column("mass", "Msun").sum()
