import argparse
import asyncio
import json
import logging

from tsch_sim.config import SimulationConfig
from tsch_sim.core.enums import LayoutType, RunSpeed
from tsch_sim.core.pacing import PacingController
from tsch_sim.core.simulator import run_single
from tsch_sim.core.topology import TopologyGenerator
from tsch_sim.utils.rng import SimulationRNG

logger = logging.getLogger(__name__)


def generate_layout(config):
    """Generate node positions and print them as a JSON position list.

    Args:
        config: Simulation configuration
    """
    generator = TopologyGenerator(config, SimulationRNG(config.seed))
    nodes = generator.generate(config.num_nodes)
    positions = [
        {"ID": i, "X": round(node.pos_x, 2), "Y": round(node.pos_y, 2)}
        for i, node in enumerate(nodes, start=1)
    ]
    print(json.dumps({"POSITIONS": positions}, indent=2))
    logger.info("layout degrees: %s", generator.degree_report(nodes))


def run_batch_simulation(config):
    """Run a simulation to the end and print the global statistics"""
    stats = run_single(config)
    print(json.dumps(stats[str(config.run_id)]["global-stats"], indent=2))
    return stats


async def run_paced_simulation(config, speed):
    """Run a simulation through the pacing controller until it ends"""
    controller = PacingController(config)

    async def stop_when_finished():
        while not controller.completed_runs:
            await asyncio.sleep(controller.poll_interval)
        controller.shutdown()

    controller.start(speed)
    await asyncio.gather(controller.run(), stop_when_finished())
    return controller.completed_runs[-1]


def main():
    """Main function to generate layouts and run simulations"""
    parser = argparse.ArgumentParser(description="TSCH Network Simulator")
    parser.add_argument(
        "--layout",
        choices=[layout.value for layout in LayoutType],
        default=LayoutType.MESH.value,
        help="Node positioning layout",
    )
    parser.add_argument("--nodes", type=int, default=10, help="Number of nodes")
    parser.add_argument("--degrees", type=float, help="Target average degree of the Mesh layout")
    parser.add_argument("--duration", type=float, default=60.0, help="Simulated seconds")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--layout-seed", type=int, help="Independent seed of the random layouts")
    parser.add_argument(
        "--generate", action="store_true", help="Only generate and print node positions"
    )
    parser.add_argument(
        "--speed",
        choices=[speed.value for speed in (RunSpeed.UNLIMITED, RunSpeed.PERCENT_10,
                                           RunSpeed.PERCENT_100, RunSpeed.PERCENT_1000)],
        help="Run paced at this speed instead of as a batch",
    )
    parser.add_argument("--save", action="store_true", help="Save statistics to the results directory")
    parser.add_argument("--results-dir", default="results", help="Directory for statistics")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = SimulationConfig(
        layout=args.layout,
        num_nodes=args.nodes,
        num_degrees=args.degrees,
        simulation_duration_sec=args.duration,
        seed=args.seed,
        layout_seed=args.layout_seed,
        save_results=args.save,
        results_dir=args.results_dir,
    ).validate()

    if args.generate:
        generate_layout(config)
    elif args.speed:
        stats = asyncio.run(run_paced_simulation(config, RunSpeed(args.speed)))
        print(json.dumps(stats[str(config.run_id)]["global-stats"], indent=2))
    else:
        run_batch_simulation(config)


if __name__ == "__main__":
    main()
