"""Cluster infrastructure charts and their level-ordered rollout."""

from envdock.charts.levels import ChartsConfigPrerequisites, gen_charts_to_deploy
from envdock.charts.rollout import check_prerequisites, deploy_chart, deploy_charts_levels

__all__ = [
    "ChartsConfigPrerequisites",
    "check_prerequisites",
    "deploy_chart",
    "deploy_charts_levels",
    "gen_charts_to_deploy",
]
