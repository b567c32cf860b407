"""FenceOps pricing, job-clustering and pricing-approval service"""
