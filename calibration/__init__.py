"""
Calibration harness for the scanner's empirical constants.

corpus_parser reads labeled policy excerpts, benchmark scores them
against the engine, optimizer turns the numbers into recommended
FAIRREVIEW_* settings.
"""
