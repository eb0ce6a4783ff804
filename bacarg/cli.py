#
# Copyright (C) 2024 The bacarg developers
#
# This file is part of bacarg.
#
# bacarg is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# bacarg is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with bacarg.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Command line interface to the bacarg library.
"""
import argparse
import logging
import os
import signal
import sys

import daiquiri

from bacarg import alignments
from bacarg import core
from bacarg import exceptions
from bacarg import formats
from bacarg import graph
from bacarg import likelihood
from bacarg import marginal
from bacarg import mcmc
from bacarg import operators
from bacarg import populations
from bacarg import substitutions

logger = logging.getLogger(__name__)


def set_sigpipe_handler():
    if os.name == "posix":
        # Set signal handler for SIGPIPE to quietly kill the program.
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)


def setup_logging(args):
    log_level = "WARN"
    if args.verbose == 1:
        log_level = "INFO"
    elif args.verbose >= 2:
        log_level = "DEBUG"
    log_output = daiquiri.output.Stream(
        sys.stderr,
        formatter=daiquiri.formatter.ColorFormatter(fmt="[%(levelname)s] %(message)s"),
    )
    daiquiri.setup(level=log_level, outputs=[log_output])


def positive_int(value):
    int_value = int(float(value))
    if int_value <= 0:
        msg = f"{value} is an invalid positive integer value"
        raise argparse.ArgumentTypeError(msg)
    return int_value


def locus_spec(value):
    """
    Converts a ``NAME:SITES`` command line value to a :class:`.Locus`.
    """
    name, sep, sites = value.rpartition(":")
    if sep == "" or len(name) == 0:
        raise argparse.ArgumentTypeError(f"Locus '{value}' must be given as NAME:SITES")
    return graph.Locus(name, positive_int(sites))


def add_acg_argument(parser):
    parser.add_argument("acg", help="File containing an extended Newick conversion graph")


def add_loci_argument(parser):
    parser.add_argument(
        "--locus",
        "-l",
        dest="loci",
        type=locus_spec,
        action="append",
        required=True,
        help="A locus given as NAME:SITES. May be repeated, in genome order",
    )


def add_model_arguments(parser):
    parser.add_argument(
        "--rho", type=float, required=True, help="The per-site conversion rate"
    )
    parser.add_argument(
        "--delta", type=float, required=True, help="The mean conversion tract length"
    )
    parser.add_argument(
        "--population-size",
        "-N",
        type=float,
        default=1.0,
        help="The population size at the present",
    )
    parser.add_argument(
        "--growth-rate",
        "-g",
        type=float,
        default=0.0,
        help="The exponential growth rate of the population",
    )
    parser.add_argument(
        "--lower-bound",
        type=int,
        default=0,
        help="The smallest conversion count with non-zero prior density",
    )
    parser.add_argument(
        "--upper-bound",
        type=int,
        default=None,
        help="The largest conversion count with non-zero prior density",
    )


def add_random_seed_argument(parser):
    parser.add_argument(
        "--random-seed",
        "-s",
        type=int,
        default=None,
        help="The random seed. If not specified one is chosen randomly",
    )


def get_population(args):
    if args.growth_rate == 0:
        return populations.ConstantPopulation(args.population_size)
    return populations.ExponentialGrowth(args.population_size, args.growth_rate)


def get_prior(args):
    return likelihood.ACGCoalescent(
        get_population(args),
        rho=args.rho,
        delta=args.delta,
        lower_bound=args.lower_bound,
        upper_bound=args.upper_bound,
    )


def load_acg(args):
    with open(args.acg) as f:
        text = f.read().strip()
    return formats.parse_acg(text, args.loci)


def run_density(args):
    acg = load_acg(args)
    prior = get_prior(args)
    print("clonal_frame\t", prior.log_clonal_frame_density(acg), sep="")
    print("total\t", prior.log_density(acg), sep="")


def run_regions(args):
    acg = load_acg(args)
    print("locus", "left", "right", "num_active", sep="\t")
    for locus in acg.loci:
        for region in acg.get_regions(locus):
            print(locus.name, region.left, region.right, region.num_active, sep="\t")


def run_export(args):
    acg = load_acg(args)
    ts = marginal.to_tree_sequence(acg, args.export_locus)
    ts.dump(args.tree_sequence)


def run_sample(args):
    acg = load_acg(args)
    prior = get_prior(args)
    rng = core.RandomSource(args.random_seed)
    sampler = operators.ConversionCreationSampler(prior.population, prior.delta)
    operator = operators.ClonalFrameConversionSwap(sampler)
    lik = None
    if args.alignment is not None:
        if acg.num_loci != 1:
            raise exceptions.ConfigurationError(
                "An alignment can only be given for a single locus"
            )
        alignment = alignments.read_fasta(args.alignment)
        lik = likelihood.ACGLikelihood(
            {acg.loci[0].name: alignment},
            model=substitutions.parse_model(args.model),
            mutation_rate=args.mutation_rate,
        )
    chain = mcmc.MetropolisHastings(acg, prior, operator, rng, likelihood=lik)

    with open(args.output, "w") as output:

        def record(step, chain):
            print(step, chain.log_posterior, formats.write_acg(chain.graph), sep="\t",
                  file=output)

        chain.run(args.num_steps, args.sample_interval, callback=record)


def add_density_subcommand(subparsers):
    parser = subparsers.add_parser(
        "density", help="Print the prior log density of a conversion graph"
    )
    add_acg_argument(parser)
    add_loci_argument(parser)
    add_model_arguments(parser)
    parser.set_defaults(runner=run_density)


def add_regions_subcommand(subparsers):
    parser = subparsers.add_parser(
        "regions", help="Print the regions of constant conversion ancestry"
    )
    add_acg_argument(parser)
    add_loci_argument(parser)
    parser.set_defaults(runner=run_regions)


def add_export_subcommand(subparsers):
    parser = subparsers.add_parser(
        "export", help="Export the marginal trees of a locus as a tree sequence"
    )
    add_acg_argument(parser)
    add_loci_argument(parser)
    parser.add_argument("tree_sequence", help="The output tree sequence file")
    parser.add_argument(
        "--export-locus",
        default=None,
        help="The locus to export. Required if there is more than one locus",
    )
    parser.set_defaults(runner=run_export)


def add_sample_subcommand(subparsers):
    parser = subparsers.add_parser(
        "sample", help="Run a Metropolis-Hastings chain over conversions"
    )
    add_acg_argument(parser)
    add_loci_argument(parser)
    add_model_arguments(parser)
    add_random_seed_argument(parser)
    parser.add_argument("output", help="The file to write sampled graphs to")
    parser.add_argument(
        "--num-steps", "-n", type=positive_int, default=1000, help="Chain length"
    )
    parser.add_argument(
        "--sample-interval",
        "-i",
        type=positive_int,
        default=100,
        help="The number of steps between samples",
    )
    parser.add_argument(
        "--alignment",
        "-a",
        default=None,
        help="A FASTA alignment for the locus. If absent, sample from the prior",
    )
    parser.add_argument(
        "--model", default="JC69", help="The substitution model: JC69 or HKY[:kappa]"
    )
    parser.add_argument(
        "--mutation-rate",
        "-u",
        type=float,
        default=1.0,
        help="Substitutions per site per unit of height",
    )
    parser.set_defaults(runner=run_sample)


def get_bacarg_parser():
    top_parser = argparse.ArgumentParser(
        description="Command line interface for bacarg."
    )
    top_parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {core.__version__}"
    )
    top_parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase verbosity"
    )
    subparsers = top_parser.add_subparsers(dest="subcommand")
    subparsers.required = True

    add_density_subcommand(subparsers)
    add_regions_subcommand(subparsers)
    add_export_subcommand(subparsers)
    add_sample_subcommand(subparsers)

    return top_parser


def bacarg_main(arg_list=None):
    set_sigpipe_handler()
    parser = get_bacarg_parser()
    args = parser.parse_args(arg_list)
    setup_logging(args)
    args.runner(args)
