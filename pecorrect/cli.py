#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Command-line interface for PECorrect.

This module provides the main CLI entry point and all subcommands for the
PECorrect paired-end read error-correction pipeline.
"""

import sys
import click
from pathlib import Path
import yaml

from .version import __version__
from .config.schema import (
    load_config,
    merge_cli_overrides,
    resolve_config,
    save_config_template,
    validate_config,
)
from .core.errors import ConfigurationError
from .core.resolver import INDEXING_ALGORITHMS
from .core.stages import describe_plan, plan
from .utils.pipeline import EXIT_USAGE, PipelineDriver, setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, verbose, quiet):
    """
    PECorrect: paired-end read error correction with SGA.

    Runs sga preprocess, sga index and sga correct in sequence on a pair of
    FASTQ files and writes a single corrected reads file.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet


# ============================================================================
# Configuration Management Commands
# ============================================================================

@main.group()
def config():
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', type=click.Path(), default='pecorrect_config.yaml',
              help='Output configuration file path')
@click.option('--template', '-t',
              type=click.Choice(['default', 'ropebwt', 'lowmem']),
              default='default', help='Configuration template type')
def config_init(output, template):
    """Generate a template configuration file with all available parameters."""
    click.echo(f"Generating {template} configuration template: {output}")

    try:
        save_config_template(Path(output), template=template)
    except OSError as e:
        click.echo(f"✗ Error creating configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Configuration file created: {output}")
    click.echo("\nEdit input.forward / input.reverse, then run:")
    click.echo(f"  pecorrect run --config {output}")


@config.command('validate')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file):
    """Validate a configuration file."""
    click.echo(f"Validating configuration file: {config_file}")

    try:
        config = load_config(Path(config_file))
    except ConfigurationError as e:
        click.echo(f"✗ Error validating configuration: {e}", err=True)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        click.echo("\n✗ Configuration validation failed:")
        for error in errors:
            click.echo(f"  • {error}", err=True)
        sys.exit(1)

    click.echo("✓ Configuration is valid")
    click.echo("\nKey Settings:")
    click.echo(f"  Index algorithm: {config['index']['algorithm']}")
    click.echo(f"  Threads: {config['index']['threads']}")
    click.echo(f"  k-mer length: {config['correct']['kmer_length']}")


@config.command('show')
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', type=click.Choice(['yaml', 'summary']), default='summary',
              help='Output format')
def config_show(config_file, format):
    """Display configuration settings."""
    try:
        config = load_config(Path(config_file))
    except ConfigurationError as e:
        click.echo(f"✗ Error reading configuration: {e}", err=True)
        sys.exit(1)

    if format == 'yaml':
        click.echo(yaml.dump(config, default_flow_style=False, sort_keys=False))
        return

    click.echo(f"Configuration from: {config_file}")
    click.echo("=" * 60)

    click.echo("\n📥 Input:")
    click.echo(f"  Forward: {config['input']['forward']}")
    click.echo(f"  Reverse: {config['input']['reverse']}")

    click.echo("\n🧹 Preprocess:")
    click.echo(f"  Min length: {config['preprocess']['min_length']}")
    click.echo(f"  Quality trim: {config['preprocess']['quality_trim']}")
    click.echo(f"  Quality filter: {config['preprocess']['quality_filter']}")

    click.echo("\n🗂  Index:")
    click.echo(f"  Algorithm: {config['index']['algorithm']}")
    click.echo(f"  Threads: {config['index']['threads']}")
    if str(config['index']['algorithm']).lower() == 'sais':
        click.echo(f"  Disk batch size: {config['index']['disk_batch_size']:,}")

    click.echo("\n🧬 Correct:")
    click.echo(f"  k-mer length: {config['correct']['kmer_length']}")
    click.echo(f"  k-mer threshold: {config['correct']['kmer_threshold']}")

    click.echo("\n📤 Output:")
    click.echo(f"  Directory: {config['output']['directory'] or '(current directory)'}")
    click.echo(f"  Filename: {config['output']['filename']}")


# ============================================================================
# Pipeline Commands
# ============================================================================

@main.command()
@click.option('-1', '--forward', type=click.Path(),
              help='Forward mate reads (FASTQ)')
@click.option('-2', '--reverse', type=click.Path(),
              help='Reverse mate reads (FASTQ)')
@click.option('--sga', 'sga_path', type=click.Path(),
              help='Path to the sga executable (default: $SGA_PATH or sga on PATH)')
@click.option('--min-length', '-m', type=int,
              help='Discard sequences shorter than this after trimming [51]')
@click.option('--quality-trim', '-q', type=int,
              help='Quality trimming parameter [3]')
@click.option('--quality-filter', '-f', type=int,
              help='Discard reads with more low-quality bases than this [3]')
@click.option('--algorithm', '-a', type=click.Choice(INDEXING_ALGORITHMS, case_sensitive=False),
              help='BWT construction algorithm [sais]')
@click.option('--threads', '-t', type=int,
              help='Threads for indexing and correction [1]')
@click.option('--disk-batch', '-d', type=int,
              help='Reads per batch for disk-based sais indexing [28000000]')
@click.option('--kmer-threshold', '-x', type=int,
              help='Correct k-mers seen fewer than this many times [5]')
@click.option('--kmer-length', '-k', type=int,
              help='k-mer size for correction; ~60% of read length [41]')
@click.option('--output-dir', '-o', type=click.Path(),
              help='Output directory [current directory]')
@click.option('--output-name', '-n',
              help='Corrected reads file name [_sga_error_corrected.fastq]')
@click.option('--timeout', type=float,
              help='Per-stage timeout in seconds [none]')
@click.option('--cleanup', is_flag=True,
              help='Remove intermediate files after a successful run')
@click.option('--debug', is_flag=True,
              help='Stream sga output to the log')
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='Configuration file (YAML); command-line options take precedence')
@click.option('--dry-run', is_flag=True,
              help='Print the planned sga commands without running them')
@click.pass_context
def run(ctx, forward, reverse, sga_path, min_length, quality_trim, quality_filter,
        algorithm, threads, disk_batch, kmer_threshold, kmer_length, output_dir,
        output_name, timeout, cleanup, debug, config, dry_run):
    """Run preprocess -> index -> correct on a pair of read files."""
    verbose = ctx.obj.get('VERBOSE', False)
    quiet = ctx.obj.get('QUIET', False)

    # ========================================================================
    # Load and merge configuration
    # ========================================================================
    try:
        pipeline_config = load_config(Path(config) if config else None)
    except ConfigurationError as e:
        click.echo(f"❌ Error: {e}", err=True)
        ctx.exit(EXIT_USAGE)

    pipeline_config = merge_cli_overrides(pipeline_config, {
        'input.forward': forward,
        'input.reverse': reverse,
        'tool.executable': sga_path,
        'preprocess.min_length': min_length,
        'preprocess.quality_trim': quality_trim,
        'preprocess.quality_filter': quality_filter,
        'index.algorithm': algorithm,
        'index.threads': threads,
        'index.disk_batch_size': disk_batch,
        'correct.kmer_threshold': kmer_threshold,
        'correct.kmer_length': kmer_length,
        'output.directory': output_dir,
        'output.filename': output_name,
        'execution.stage_timeout': timeout,
        'output.keep_intermediates': False if cleanup else None,
        'execution.debug': True if debug else None,
    })

    config_errors = validate_config(pipeline_config)
    if config_errors:
        click.echo("❌ Configuration validation failed:", err=True)
        for error in config_errors:
            click.echo(f"  • {error}", err=True)
        ctx.exit(EXIT_USAGE)

    try:
        run_plan = resolve_config(pipeline_config)
    except ConfigurationError as e:
        click.echo(f"❌ Error: {e}", err=True)
        click.echo("", err=True)
        click.echo(ctx.get_usage(), err=True)
        ctx.exit(EXIT_USAGE)

    stages = plan(run_plan)

    if dry_run:
        click.echo(describe_plan(stages))
        click.echo(f"\nFinal output: {run_plan.final_output_path}")
        ctx.exit(0)

    # ========================================================================
    # Display pipeline configuration
    # ========================================================================
    if not quiet:
        click.echo(f"{'='*60}")
        click.echo(f"PECorrect v{__version__}")
        click.echo(f"{'='*60}")
        click.echo(f"  Forward: {run_plan.forward_reads_path}")
        click.echo(f"  Reverse: {run_plan.reverse_reads_path}")
        click.echo(f"  Engine:  {run_plan.tool_executable_path}")
        click.echo(f"  Output:  {run_plan.final_output_path}")
        click.echo(f"{'='*60}\n")

    # ========================================================================
    # Run Pipeline
    # ========================================================================
    if run_plan.debug_enabled:
        log_level = 'DEBUG'
    elif quiet:
        log_level = 'WARNING'
    elif verbose:
        log_level = 'INFO'
    else:
        log_level = pipeline_config['output']['logging']['level']

    try:
        setup_logging(
            run_plan.output_directory,
            level=log_level,
            log_file=pipeline_config['output']['logging']['log_file'],
        )
    except OSError as e:
        click.echo(f"❌ Error: cannot write to output directory {run_plan.output_directory}: {e}",
                   err=True)
        ctx.exit(EXIT_USAGE)

    result = PipelineDriver(run_plan).execute()

    if result.succeeded:
        if not quiet:
            click.echo("\n" + "=" * 60)
            click.echo("✅ Pipeline completed successfully!")
            click.echo("=" * 60)
            click.echo(f"Corrected reads: {result.final_output_path}")
        ctx.exit(0)

    click.echo(f"\n❌ Pipeline failed at {result.failed_stage.label} ({result.error_kind})", err=True)
    click.echo(result.diagnostic_message, err=True)
    ctx.exit(result.exit_code)


# ============================================================================
# Utility Commands
# ============================================================================

@main.command()
def version():
    """Show version information."""
    from .utils.tools import find_sga, is_executable

    click.echo(f"PECorrect v{__version__}")
    click.echo("\nDependencies:")
    click.echo(f"  PyYAML: {yaml.__version__}")

    sga = find_sga()
    status = "found" if is_executable(sga) else "not found"
    click.echo(f"  sga: {sga} ({status})")


if __name__ == '__main__':
    sys.exit(main())
