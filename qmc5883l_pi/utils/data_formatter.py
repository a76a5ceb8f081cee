"""
Data Formatter Utility
"""

from datetime import datetime
from typing import Dict, Any, Optional

from qmc5883l_pi.sensors.qmc5883l import RawSample


class DataFormatter:
    """Format magnetometer readings for output"""

    @staticmethod
    def format_sample(sample: Optional[RawSample], error: Optional[Exception] = None,
                      device_id: str = 'qmc5883l') -> Dict[str, Any]:
        """Build an output record; axes are None when no sample was read"""
        x, y, z = sample.as_tuple() if sample is not None else (None, None, None)
        return {
            'timestamp': datetime.now().isoformat(),
            'device_id': device_id,
            'x': x,
            'y': y,
            'z': z,
            'error': str(error) if error is not None else None,
        }

    @staticmethod
    def format_log_line(record: Dict[str, Any]) -> str:
        return f"x={record['x']} y={record['y']} z={record['z']} err={record['error']}"
