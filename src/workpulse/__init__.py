"""WorkPulse -- 任务生命周期规则与员工绩效评分"""

__version__ = "0.1.0"
