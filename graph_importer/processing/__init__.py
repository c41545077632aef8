# -*- coding: utf-8 -*-
"""
Processing package for batching and concurrent dispatch.

Contains batch_accumulator (records to bounded batches, one producer per
source) and dispatch_pool (fixed worker pool with retry and failure capture).
"""
