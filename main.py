#!/usr/bin/env python3
"""
集群健康监控系统主应用程序入口

按配置组装探测器、扫描器、告警协调器和调度器，
处理信号并实现优雅关闭。
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
import traceback
from typing import Optional, Dict, Any

from fleet_monitor.alerts.manager import NotifierManager
from fleet_monitor.alerts.reconciler import AlertReconciler
from fleet_monitor.checkers.prober import EndpointProber
from fleet_monitor.models.health_check import FailingEnv, RecoveredEnv
from fleet_monitor.services.config_manager import ConfigManager
from fleet_monitor.services.fleet_scanner import FleetScanner
from fleet_monitor.services.health_check_service import HealthCheckService
from fleet_monitor.services.monitor_scheduler import MonitorScheduler
from fleet_monitor.stores import create_state_store
from fleet_monitor.stores.base import BaseAlertStateStore
from fleet_monitor.utils.exceptions import FleetMonitorError, ConfigError
from fleet_monitor.utils.log_manager import LogLevel, log_manager, get_logger

# 版本信息
__version__ = "1.0.0"


class FleetMonitorApp:
    """集群健康监控主应用程序类"""

    def __init__(self, config_path: str, log_overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
            log_overrides: 命令行传入的日志配置，优先于配置文件
        """
        self.config_path = config_path
        self.log_overrides = log_overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.state_store: Optional[BaseAlertStateStore] = None
        self.notifier_manager: Optional[NotifierManager] = None
        self.health_check_service: Optional[HealthCheckService] = None
        self.monitor_scheduler: Optional[MonitorScheduler] = None

        self.scheduler_task: Optional[asyncio.Task] = None

    async def initialize(self):
        """初始化应用程序组件"""
        try:
            self.config_manager = ConfigManager(self.config_path)
            self.config_manager.load_config()
            global_config = self.config_manager.get_global_config()

            self._configure_logging(global_config)
            self.logger = get_logger('main')
            self.logger.info("开始初始化集群健康监控系统")

            self.state_store = create_state_store(self.config_manager.get_state_store_config())
            # 每个通知器单独限时，慢的通知器不会拖累或取消其他通知器
            self.notifier_manager = NotifierManager(
                self.config_manager.get_notifiers_config(),
                notify_timeout=global_config.get('notify_timeout',
                                                 AlertReconciler.DEFAULT_NOTIFY_TIMEOUT))

            prober = EndpointProber.from_config(global_config)
            scanner = FleetScanner(prober, global_config.get('max_concurrent_probes', 0))
            reconciler = AlertReconciler(
                self.state_store,
                self.notifier_manager,
                down_flag_ttl=global_config.get('down_flag_ttl',
                                                AlertReconciler.DEFAULT_DOWN_FLAG_TTL),
                notify_timeout=None
            )

            self.health_check_service = HealthCheckService(
                self.config_manager.get_endpoints(), scanner, reconciler, self.state_store)
            check_interval = global_config.get('check_interval',
                                               MonitorScheduler.DEFAULT_CHECK_INTERVAL)
            self.monitor_scheduler = MonitorScheduler(self.health_check_service, check_interval)

            self.logger.info(
                f"应用程序组件初始化完成: {len(self.health_check_service.endpoints)} 个端点, "
                f"{self.notifier_manager.get_notifier_count()} 个通知器, "
                f"状态存储: {self.state_store.store_type}")

        except Exception as e:
            if self.logger:
                self.logger.error(f"应用程序初始化失败: {e}", exc_info=True)
            else:
                print(f"应用程序初始化失败: {e}", file=sys.stderr)
            raise

    def _configure_logging(self, global_config: Dict[str, Any]):
        """配置日志系统，命令行参数覆盖配置文件

        Args:
            global_config: 全局配置
        """
        settings = dict(global_config)
        settings.update(self.log_overrides)

        log_config = {
            'log_level': settings.get('log_level', 'INFO'),
            'enable_console': True,
            'enable_file': bool(settings.get('log_file'))
        }

        if settings.get('log_file'):
            log_config['log_file'] = settings['log_file']
            log_config['max_file_size'] = settings.get('max_log_size', 10 * 1024 * 1024)
            log_config['backup_count'] = settings.get('log_backup_count', 5)

        log_manager.configure(log_config)

    async def start(self):
        """启动应用程序，直到收到关闭信号"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动集群健康监控系统")

            self.scheduler_task = asyncio.create_task(self.monitor_scheduler.start())

            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止集群健康监控系统...")
        self.is_running = False

        try:
            if self.monitor_scheduler:
                await self.monitor_scheduler.stop()

            if self.scheduler_task and not self.scheduler_task.done():
                try:
                    await asyncio.wait_for(self.scheduler_task, timeout=30)
                except asyncio.TimeoutError:
                    self.scheduler_task.cancel()
                    await asyncio.gather(self.scheduler_task, return_exceptions=True)

            if self.state_store:
                await self.state_store.close()

            self.logger.info("集群健康监控系统已停止")
            log_manager.cleanup()

        except Exception as e:
            if self.logger:
                self.logger.error(f"停止应用程序时发生异常: {e}", exc_info=True)
            else:
                print(f"停止应用程序时发生异常: {e}", file=sys.stderr)

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
        }

        if self.monitor_scheduler:
            status['scheduler_stats'] = self.monitor_scheduler.get_scheduler_stats()

        if self.notifier_manager:
            status['notifiers'] = self.notifier_manager.get_notifier_names()

        if self.state_store:
            status['state_store'] = self.state_store.store_type

        return status


# 全局应用程序实例
app: Optional[FleetMonitorApp] = None


def signal_handler(signum, frame):
    """信号处理器"""
    signal_name = signal.Signals(signum).name
    print(f"\n收到信号 {signal_name} ({signum})")

    if app:
        app.shutdown()
    else:
        print("应用程序未初始化，直接退出")
        sys.exit(0)


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='fleet-monitor',
        description='集群健康监控 - 周期探测各服务各环境的健康端点并发送分组告警',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  %(prog)s fleet.yaml                  持续监控
  %(prog)s --check-once fleet.yaml     检查一次，结果以JSON输出到标准输出
  %(prog)s --validate fleet.yaml       只校验配置
  %(prog)s --test-alerts fleet.yaml    向所有通知器发送一组演练告警

完整的配置示例见 config/example.yaml
        """
    )

    parser.add_argument('config_file', nargs='?', help='YAML配置文件路径')
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')

    modes = parser.add_argument_group('单次运行模式')
    modes.add_argument('--validate', action='store_true', help='校验配置后退出')
    modes.add_argument('--check-once', action='store_true',
                       help='执行一轮检查和告警协调后退出，存在故障端点时退出码为1')
    modes.add_argument('--test-alerts', action='store_true',
                       help='发送一条演练故障告警和一条恢复通知后退出')

    logging_group = parser.add_argument_group('日志（覆盖配置文件）')
    logging_group.add_argument('--log-level', choices=[level.name for level in LogLevel],
                               help='日志级别')
    logging_group.add_argument('--log-file', help='日志文件路径，启用轮转文件输出')

    return parser


def validate_config_file(config_path: str) -> bool:
    """验证配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        验证是否成功
    """
    try:
        print(f"正在验证配置文件: {config_path}")

        if not os.path.exists(config_path):
            print(f"❌ 配置文件不存在: {config_path}")
            return False

        config_manager = ConfigManager(config_path)
        config_manager.load_config()
        EndpointProber.from_config(config_manager.get_global_config())

        services = config_manager.get_services_config()
        endpoints = config_manager.get_endpoints()
        notifiers = config_manager.get_notifiers_config()

        print("✅ 配置文件验证成功!")
        print(f"   - 服务数量: {len(services)}")
        print(f"   - 端点数量: {len(endpoints)}")
        print(f"   - 通知器数量: {len(notifiers)}")

        if endpoints:
            print("   - 监控的端点:")
            for endpoint in endpoints:
                print(f"     * {endpoint.service_name} ({endpoint.env_name}): {endpoint.url}")

        if notifiers:
            print("   - 配置的通知器:")
            for notifier_config in notifiers:
                print(f"     * {notifier_config.get('name', 'unnamed')} "
                      f"({notifier_config.get('type', 'unknown')})")

        return True

    except Exception as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False


async def run_alert_test(config_path: str, log_overrides: Optional[Dict[str, Any]] = None) -> bool:
    """通过所有通知器发送一条测试故障告警和恢复通知

    Args:
        config_path: 配置文件路径
        log_overrides: 命令行传入的日志配置

    Returns:
        所有通知器是否都发送成功
    """
    test_app = FleetMonitorApp(config_path, log_overrides)
    try:
        print(f"正在测试告警系统: {config_path}")
        await test_app.initialize()

        manager = test_app.notifier_manager
        if manager.get_notifier_count() == 0:
            print("❌ 没有配置任何通知器")
            return False

        test_url = 'https://example.invalid/health'
        down_results = await manager.send_down_alert(
            'Alert Test', [FailingEnv(env_name='Test', url=test_url, status_code=503)])
        recovery_results = await manager.send_recovery_alert(
            'Alert Test', [RecoveredEnv(env_name='Test', url=test_url)])

        success = True
        for name in manager.get_notifier_names():
            ok = down_results.get(name, False) and recovery_results.get(name, False)
            print(f"   {'✅' if ok else '❌'} {name}")
            success = success and ok

        if success:
            print("✅ 告警系统测试成功!")
        else:
            print("❌ 告警系统测试失败!")

        return success

    except Exception as e:
        print(f"❌ 告警系统测试失败: {e}")
        return False
    finally:
        if test_app.state_store:
            await test_app.state_store.close()


async def check_once(config_path: str, log_overrides: Optional[Dict[str, Any]] = None) -> bool:
    """执行一次健康检查并以JSON输出结果

    标准输出只包含JSON结果，提示信息写到标准错误。

    Args:
        config_path: 配置文件路径
        log_overrides: 命令行传入的日志配置

    Returns:
        检查被跳过或全部端点正常时返回True
    """
    check_app = FleetMonitorApp(config_path, log_overrides)
    try:
        print(f"正在执行健康检查: {config_path}", file=sys.stderr)
        await check_app.initialize()

        result = await check_app.health_check_service.run_check()
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))

        if result.is_skipped:
            return True
        return result.summary.down == 0

    except Exception as e:
        print(f"❌ 健康检查失败: {e}", file=sys.stderr)
        return False
    finally:
        if check_app.state_store:
            await check_app.state_store.close()


async def main():
    """主函数"""
    global app

    parser = create_argument_parser()
    args = parser.parse_args()

    if not args.config_file:
        parser.print_help()
        sys.exit(1)

    config_path = args.config_file

    if not os.path.exists(config_path):
        print(f"配置文件不存在: {config_path}", file=sys.stderr)
        sys.exit(1)

    if args.validate:
        sys.exit(0 if validate_config_file(config_path) else 1)

    log_overrides = {key: value for key, value in
                     (('log_level', args.log_level), ('log_file', args.log_file)) if value}

    for enabled, one_shot in ((args.test_alerts, run_alert_test), (args.check_once, check_once)):
        if enabled:
            sys.exit(0 if await one_shot(config_path, log_overrides) else 1)

    try:
        app = FleetMonitorApp(config_path, log_overrides)
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, signal_handler)

        await app.initialize()
        print(f"集群健康监控 v{__version__} 已启动，配置文件: {config_path}，按 Ctrl+C 停止")

        await app.start()

    except KeyboardInterrupt:
        print("\n用户中断程序")
    except FleetMonitorError as e:
        label = "配置错误" if isinstance(e, ConfigError) else "集群健康监控错误"
        print(f"{label}: {e.format_error()}", file=sys.stderr)
        sys.exit(1)
    except Exception:
        print("未预期的错误:", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)
    finally:
        if app:
            await app.stop()


def run():
    """命令行入口"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
