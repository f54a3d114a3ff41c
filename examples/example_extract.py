from sqlextract.extract_executor import ExtractExecutor
from pathlib import Path
from datetime import datetime, timedelta

def main():
    try:
        config_path = Path(__file__).parent / "config.yaml"

        # T-1 (Yesterday), format: YYYY-MM-DD
        t1_date = (datetime.now() - timedelta(days=1)).strftime('%Y-%m-%d')

        executor = ExtractExecutor(
            config_file=config_path,
            query_parameters={"dt": t1_date},
            max_concurrent=4
        )

        print("\nExecuting all extractions...")
        summary = executor.execute()
        print(f"\nAll extractions completed: {summary.total_rows} rows in {summary.duration:.2f} seconds")

    except Exception as e:
        print(f"\nError occurred: {str(e)}")
        raise

if __name__ == "__main__":
    main()
