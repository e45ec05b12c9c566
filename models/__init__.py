"""
Models package for the Resource Allocation Graph Simulator.
Contains the process and resource records, the allocation store, reports and error types.
"""
