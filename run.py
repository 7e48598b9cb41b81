import asyncio
import sys

from rich import print

from gsvviews.config import DownloaderConfig
from gsvviews.core import RunReport, fetch_scenes
from gsvviews.exceptions import ConfigurationError
from gsvviews.my_utils import (
    is_valid_scene_id,
    open_dataset,
    parse_args,
    timer,
    write_cleaned_dataset
)


async def main(args, config: DownloaderConfig) -> RunReport:
    if args.scene_id:
        dataset = [args.scene_id]
    else:
        dataset = open_dataset(args.file)

    if limit := args.limit:
        dataset = dataset[:limit]

    if not dataset:
        raise ConfigurationError("No valid scene ids found")

    malformed = [scene_id for scene_id in dataset if not is_valid_scene_id(scene_id)]
    if malformed:
        print(f"[yellow]| {len(malformed)} ids do not look like 22-character pano ids, processing anyway[/]")

    return await fetch_scenes(dataset, config, args.output)


if __name__ == "__main__":
    try:
        args = parse_args()
        config = DownloaderConfig.from_args(args)

        with timer() as t:
            report = asyncio.run(main(args, config))

        if config.clean_csv and args.file and report.failed_ids:
            cleaned = write_cleaned_dataset(args.file, report.failed_ids, config.clean_csv_path)
            if cleaned:
                print(f"[orange1]| Cleaned dataset written to [green]{cleaned}[/][/]")

        print(f"\n[gray]{'-' * 85}[/]")
        print(f"\n[orange1]| Processed [green]{report.successful}/{report.total}[/] panos in [green]{t.time_elapsed}[/][/]")
        print(f"[orange1]| Failed [red]{report.failed}[/][/]")
        print(f"[orange1]| Saved at [green]{report.output_dir}[/][/]\n")
        sys.exit(0 if report.failed == 0 else 1)
    except ConfigurationError as error:
        print(f"[red][CONFIG] Error: {error}[/]")
        sys.exit(1)
    except Exception as error:
        print(f"[red][MAIN] Error: {error}[/]")
        sys.exit(1)
    except KeyboardInterrupt:
        print("[red]Keyboard Interrupted[/]")
        sys.exit(1)
