"""Host hardware discovery."""
from pveforge.discovery.hwdetect import GpuDetector, GpuDevice

__all__ = ['GpuDetector', 'GpuDevice']
